from .download import DownloadedFile
from .report import outcomes_frame, write_report

__all__ = ["DownloadedFile", "outcomes_frame", "write_report"]
