"""Analytics Collector: recolección, enriquecimiento y publicación de eventos de tracking."""

__version__ = "1.0.0"
