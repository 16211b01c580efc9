"""
QuestKeeper — Quest Reward Distribution for Discord Roleplay Communities
=========================================================================
Decides when quest participants have finished their quests, computes what
they earned, and pays each participant exactly once — whether the payout is
triggered by an approval, by a quest ending, or by the monthly sweep.

Package layout::

    questkeeper/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Embed colours and presentation constants
    ├── errors.py          # Exception hierarchy
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # Quest, participant, ledger, inventory tables
    ├── engine/
    │   ├── formula.py     # Reward expression parser
    │   ├── units.py       # Per-participant unit counter
    │   ├── quest_types.py # Completion predicates per quest type
    │   ├── status.py      # Reward status classifier
    │   ├── jobs.py        # Effective job resolution
    │   ├── reward.py      # RewardContext + token math
    │   └── expiry.py      # Quest time-limit parsing
    ├── services/
    │   ├── quest_reward_service.py    # Completion orchestrator
    │   ├── reconciliation_service.py  # Monthly sweep
    │   ├── distribution_service.py    # Token + item grants
    │   ├── completion_service.py      # Completion evaluator + safeguard
    │   ├── submission_sync.py         # Approved-submission bridge
    │   ├── ledger_service.py          # Balances + completion history
    │   ├── inventory_service.py       # Item catalog + inventory
    │   ├── character_service.py       # Characters + bonus detection
    │   ├── notifier.py                # Notifier protocol
    │   ├── announcement_service.py    # Discord notifier
    │   └── embeds.py                  # Embed builders
    ├── bot/
    │   ├── core.py        # Bot subclass, cog loader
    │   └── cogs/
    │       ├── quests.py  # /quest-process, /quest-complete, /quest-status, /quest-reconcile
    │       └── tasks.py   # Monthly reconciliation + expiry loops
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT admin guard, engine
        └── routes/        # Admin quest endpoints
"""

__version__ = "0.1.0"
