"""Import every workflow so the runner registry knows about them."""
from fossgen.workflows import case_study, playground, symbols, tiles

__all__ = ["case_study", "playground", "symbols", "tiles"]
