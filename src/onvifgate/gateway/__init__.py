"""Device reconciliation and the camera devices exposed to the host."""
