"""Hospital Service for the Pet Hospital Access Layer."""
