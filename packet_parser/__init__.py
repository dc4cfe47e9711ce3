"""
Packet Parser
=============
Splits science-quiz packets (TOSS-UP / BONUS heading layout) into
individually addressable questions and composes problem sets from them.

Architecture:
    - Renderer: Produces positioned text tokens and a raster per page
    - Boundary Detector: Finds question spans via heading / separator tokens
    - Metadata Extractor: Subject, round, sequence number and answer rules
    - Region Cropper: Cuts one question's band out of the page raster
    - Segmentation Engine: Orchestrates the above into a subject pool
    - Set Composer: Builds round-balanced problem sets from the pool

Version: 1.0.0
"""

__version__ = "1.0.0"
