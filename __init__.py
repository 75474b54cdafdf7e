"""Receipt OCR parsing: heuristic extraction, validation and parse-job orchestration."""

__version__ = "0.1.0"
