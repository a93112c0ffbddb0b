"""
Retail POS package

This package organizes the shop app into the modules it runs on:
- settings: configuration and constants
- adapters: external integrations (Postgres store, chat-completion API)
- domain: cart, discounts, totals, insight math, prompts and errors
- services: checkout session, AI insights and reports orchestration
- log: logger setup shared by the app and batch scripts
- ui: sidebar session context and money formatting for the pages
"""

__all__ = [
    "settings",
    "adapters",
    "domain",
    "services",
    "log",
    "ui",
]
