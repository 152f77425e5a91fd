"""Riskwatch services.

- providers: typed clients for the voice and AI analysis providers
- risk_engine: cache, retry and the audio-first assessment pipeline
- conversation_service: lifecycle, persistence, reconciliation, HTTP
- alerting: intervention alerts on Kinesis
"""
