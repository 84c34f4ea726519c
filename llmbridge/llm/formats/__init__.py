"""Backend wire formats (request builders, response parsers, stream decoders)."""
