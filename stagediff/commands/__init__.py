"""stagediff subcommands."""
