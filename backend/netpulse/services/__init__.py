"""Services for probing, collection, event detection, analytics and fan-out."""
