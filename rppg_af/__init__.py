"""
rPPG AF Monitor: heart rate, HRV and atrial-fibrillation risk from the
per-frame average colour of a facial skin region.
The CHROM method turns the colour trace into a pulse signal; beats are
detected on the band-passed pulse and scored with a logistic AF model.
"""

__version__ = "0.1.0"
__author__ = "rppg_af"
