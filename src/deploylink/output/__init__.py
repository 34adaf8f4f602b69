"""出力フォーマット"""

from deploylink.output.formatter import OutputFormat, OutputFormatter

__all__ = ["OutputFormat", "OutputFormatter"]
