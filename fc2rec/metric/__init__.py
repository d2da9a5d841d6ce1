from .metric_manager import MetricManager, metric
