"""Error taxonomy for city data requests.

Everything a request can fail with derives from `CityDataError`, so the API
layer can turn it into a single `{"error": message}` response. `status_code`
is the HTTP status that response uses.
"""

from __future__ import annotations


class CityDataError(Exception):
    status_code = 500

    def __init__(self, message: str, *, city: str = ""):
        super().__init__(message)
        self.message = message
        self.city = city


class UnknownCity(CityDataError):
    status_code = 404


class MalformedInputDocument(CityDataError):
    pass


class MalformedGeometryDocument(MalformedInputDocument):
    pass


class MalformedReportDocument(MalformedInputDocument):
    pass


class NoRegionsAssembled(CityDataError):
    pass


class UpstreamNotFound(CityDataError):
    status_code = 404


class DocumentNotFound(UpstreamNotFound):
    """A single document (geometry or report) is missing from one source."""

    def __init__(self, message: str, *, city: str = "", collection: str = ""):
        super().__init__(message, city=city)
        self.collection = collection


class GeometryError(ValueError):
    """Per-feature geometry problem. Never leaves the assembler."""


class ReportGenerationError(RuntimeError):
    pass
