"""CodeVault: upload, browse and download codebases"""
