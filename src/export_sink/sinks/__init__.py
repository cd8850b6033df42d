from export_sink.sinks.base import Sink
from export_sink.sinks.csv_sink import CsvSink
from export_sink.sinks.parquet_sink import ParquetSink

__all__ = ["CsvSink", "ParquetSink", "Sink"]
