"""flatsync - mirror a flat-namespace remote project store into a local git tree."""

__version__ = "0.1.0"
