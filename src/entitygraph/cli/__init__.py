"""entitygraph command line interface."""
