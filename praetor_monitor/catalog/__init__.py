"""
Catalog Module for Praetor Monitor.

Operator actions over projects, job templates, inventories, hosts and
groups. See service.py.
"""
