"""Handover Hub backend: DB models, access policies, pipelines, APIs.

Tracks the transfer of responsibilities from exiting employees to their
successors, ingests AI insights about those handovers and derives the
statistics HR uses to monitor them.
"""
