"""crmflow: rule-driven automation engine for multi-tenant CRM records."""

__version__ = "1.0.0"
