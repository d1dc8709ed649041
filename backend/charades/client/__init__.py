"""Client-side pieces: countdown coordination, state sync and screen views."""
