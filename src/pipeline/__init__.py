"""
Child Face Generation Pipeline

Three-stage provider pipeline:
1. Synthesis - custom child-face model
2. Restoration - CodeFormer
3. Stylization - FLUX Kontext
"""
