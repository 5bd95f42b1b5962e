"""App: sincronização e cache da lista de emails do CRM.

Subpastas:
- bootstrap/: composition root (factories, inicialização, wiring)
- domain/: EmailRecord, normalização, identidade, pastas (funções puras)
- services/: sessão de sincronização, tempo real, contagens, reconciliação
- infra/: implementações concretas de IO (Firestore, Redis, memória)
- protocols/: contratos/interfaces
- observability/: correlation_id e métricas

Padrão: app executa; config configura; utils apoia.
"""
