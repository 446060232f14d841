"""Run report builders."""
