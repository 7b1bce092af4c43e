"""Praxis: adaptive agent performance and ranking engine.

Agents execute behaviors, reflect on the results, and get ranked; a feedback
loop switches behaviors on and off from the impact their reflections report.
"""

__version__ = "0.3.0"
