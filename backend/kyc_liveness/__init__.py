"""
Facial KYC liveness verification: ordered head-pose and expression
challenges judged frame by frame from facial landmarks.
"""
__version__ = "0.1.0"
