"""Alert delivery channels and their per-channel renderings."""
