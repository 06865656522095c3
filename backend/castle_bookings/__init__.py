"""Booking back-office for a bouncy castle hire business."""
