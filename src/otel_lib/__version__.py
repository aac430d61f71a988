# -*- coding: utf-8 -*-

__title__ = "otel-lib"
__description__ = "Telemetry export orchestrator: OTLP push pipelines, Prometheus scrape endpoint and stdio mirrors."
__url__ = ""
__version__ = "0.1.0"
__author__ = "otel-lib authors"
__author_email__ = ""
__license__ = "MIT"
