"""Core building blocks shared by both flows."""
