"""Core logic for threadsync: process runner, git adapter, sync engine, config."""
