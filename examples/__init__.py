# examples/__init__.py
"""
Examples for robot_loop.

Examples:
    01_flywheel_spinup.py      - Build a loop from a profile and spin up a simulated flywheel
    02_identify_gains.py       - Record a run, fit kv/ka, design an LQR from the fit
"""
