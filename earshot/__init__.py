"""
Earshot

Listens to the microphone and periodically classifies ambient sounds
with a pretrained YAMNet model, showing the labels that score above a
fixed probability threshold.
"""

__version__ = "1.0.0"
__author__ = "Earshot Team"
