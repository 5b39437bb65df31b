"""Image normalization for multimodal requests."""
