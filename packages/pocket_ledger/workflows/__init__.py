"""Interactive flows that compose the staging buffer, engine and pickers."""
