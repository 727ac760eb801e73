"""
Feature packages of the relationship engine.

Each vertical slice keeps its pure rules, repository and service together:
scoring, transitions, duplicates, queue, outreach, contacts, interactions
and categorization.
"""
