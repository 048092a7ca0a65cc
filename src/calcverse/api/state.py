"""Shared engine and call-site state for the API routes."""
from ..engine import EstimationEngine
from ..services import directory

engine = EstimationEngine()

# Directory CSVs are read once per process
catalog = directory.load_catalog()
category_names = directory.load_category_names()
