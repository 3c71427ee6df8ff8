"""Token pattern and stop-word lists used for tag extraction.

Kept in a standalone module so the tagger and the compactor's keyword-overlap
check share one vocabulary without importing each other.
"""

import re

# Letters/digits, optionally joined by hyphens ("cook-mode", "l2-summary").
TOKEN_PATTERN = re.compile(r"[^\W_]+(?:-[^\W_]+)*", re.UNICODE)

ENGLISH_STOPWORDS: frozenset[str] = frozenset("""
a about above after again against all also am an and any are as at be because been
before being below between both but by can could did do does doing done down during
each else even ever few for from further get got had has have having he her here hers
herself him himself his how i if in into is it its itself just let like me more most
much must my myself no nor not now of off on once only or other our ours ourselves out
over own really same say said she should so some still such than that the their theirs
them themselves then there these they this those through to too under until up upon us
very was we well were what when where which while who whom why will with would yes yet
you your yours yourself yourselves okay ok hello hi hey thanks thank please sure
don doesn didn isn wasn aren weren won wouldn couldn shouldn haven hasn ll ve re
""".split())

FRENCH_STOPWORDS: frozenset[str] = frozenset("""
au aux avec ce ces cela cet cette dans de des du elle elles en est et eux il ils je la
le les leur leurs lui ma mais me meme mes moi mon ne nos notre nous on ou par pas pour
qu que qui sa se ses son sur ta te tes toi ton tu un une vos votre vous c d j l m n s t y
été être avoir fait faire comme plus donc car ni quoi où quand comment pourquoi alors
cependant néanmoins très bien oui non bonjour salut merci aussi tout tous toute toutes
""".split())

DEFAULT_STOPWORDS: frozenset[str] = ENGLISH_STOPWORDS | FRENCH_STOPWORDS
