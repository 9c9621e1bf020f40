"""Receipt Capture Pipeline.

Turns a phone photo of a receipt into a pre-filled expense: OpenCV
boundary detection and perspective correction, contrast enhancement,
Tesseract OCR and rule-based total extraction, held for user review
before the confirmed record is committed.
"""
