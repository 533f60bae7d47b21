"""Entry-point scripts; each exposes run(args, output, context)."""
