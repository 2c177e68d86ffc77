"""Catalog, code allocation and spreadsheet import backend."""
