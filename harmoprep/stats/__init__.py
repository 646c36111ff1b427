"""Voxel statistics: fMRI temporal SNR and TBSS skeleton ROI summaries."""
