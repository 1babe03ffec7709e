"""AI-assisted infographic authoring backend: page generation queue and pipeline."""
