"""Exploratory data analysis pipelines for tabular datasets."""

__version__ = "0.1.0"
