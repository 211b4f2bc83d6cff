"""Content extractors: WebScraperExtractor for URLs, FileExtractor for uploads."""
