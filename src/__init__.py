"""HomeGuard OCR fusion service.

Extracts asset details from photos of household items by running a
generative vision model and a text-detection service side by side and
fusing their output into one scored, reviewable record.
"""
