"""Command line tool managing users of a Slurm-style accounting database."""
