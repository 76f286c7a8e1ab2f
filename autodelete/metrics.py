# autodelete/metrics.py

from prometheus_client import Counter, Gauge

MEDIA_PROCESSED = Counter(
    'autodelete_media_processed_total',
    'Media messages processed, by the rule that decided the delay',
    ['source']
)
DELETIONS_ARMED = Counter('autodelete_deletions_armed_total', 'Deletion timers armed')
DELETIONS_SUPPRESSED = Counter('autodelete_deletions_suppressed_total', 'Zero-delay deletions not armed')
DELETIONS_COMPLETED = Counter(
    'autodelete_deletions_total',
    'Fired deletion timers, by outcome',
    ['outcome']
)
PENDING_DELETIONS = Gauge('autodelete_pending_deletions', 'Armed deletion timers not yet fired')
