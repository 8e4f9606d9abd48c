"""HTTP content-delivery surface."""
