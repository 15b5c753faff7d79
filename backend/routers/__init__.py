# Router package
from . import shopping_lists, ingestion
