"""Edge API: cached live activity reads and event stream."""
