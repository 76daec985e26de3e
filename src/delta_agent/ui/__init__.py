"""UI subpackage - terminal rendering, slash commands and the CLI."""
