"""pcod_lhs: Life-history-stage individual-based model for Pacific cod.

An individual-based model of early life stages drifting in a modeled
ocean current field:
  - Egg → yolk-sac larva (YSL) → feeding larva (FDLpf)
    → epipelagic juvenile (Epijuv) → benthic juvenile (BenthicJuv)
  - Pluggable growth, mortality, vertical-movement and habitat functions
  - Bioenergetic growth of feeding larvae with light, stomach and
    multi-source mortality sub-models
  - Super-individual abundance bookkeeping across stage transitions
"""

__version__ = "0.1.0"
