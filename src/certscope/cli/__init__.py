"""certscope command-line interface."""
