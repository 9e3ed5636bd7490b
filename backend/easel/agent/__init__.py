"""Workflow state, events and stages"""
