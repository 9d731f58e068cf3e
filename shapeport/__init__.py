# -----------------------------------------------------------------------------
# SHAPEPORT
# -----------------------------------------------------------------------------
# Exports Onshape parts to STL/STEP/... for every configuration combination
# and packs the results into one archive.
# -----------------------------------------------------------------------------

__version__ = "1.0.0"
