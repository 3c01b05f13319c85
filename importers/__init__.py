"""Importer package housing the delivery platform ingestion logic."""

from .doordash_importer import DoordashImporter
from .grubhub_importer import GrubhubImporter
from .ubereats_importer import UberEatsImporter

IMPORTERS = {
    "ubereats": UberEatsImporter,
    "doordash": DoordashImporter,
    "grubhub": GrubhubImporter,
}

__all__ = ["UberEatsImporter", "DoordashImporter", "GrubhubImporter", "IMPORTERS"]
