"""SmartShelf inventory management: realtime sync, forecasting and auto-restock on AWS."""

__version__ = "0.1.0"
