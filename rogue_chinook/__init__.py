"""Early/late migration-allele analysis for Lower Rogue River Chinook salmon."""

__version__ = "0.1.0"
