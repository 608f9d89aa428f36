"""Registry package.

``gateway`` performs the single authenticated call to SPAR, ``payload``
reduces whatever comes back to one intermediate tree, and
``normalizer`` maps that tree onto a lookup outcome.
"""
