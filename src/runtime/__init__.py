"""Client-side delivery: format, quality, placeholders, lazy reveal, caching, metrics."""
