"""
Services package for the Interview Behavior Analyzer.

This package contains clients for the external collaborators:
- Persistence API: per-question body-language aggregates and violation reports
- Object Detection: phone detection on JPEG snapshots (optional)
- Phone detection worker: background loop feeding detection results to a session
"""
