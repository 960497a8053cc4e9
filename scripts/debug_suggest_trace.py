import argparse
import logging
import os
import sys

# Add the project root directory to the python path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from citysuggest.core.config import settings
from citysuggest.index.places import load_place_index
from citysuggest.nlp.normalizer import normalize
from citysuggest.ranking.scorer import LatLong, Scorer
from citysuggest.recall.matcher import Matcher
from citysuggest.session.cache import SessionCache, fingerprint


# Setup logging to file and console
class Tee(object):
    def __init__(self, *files):
        self.files = files

    def write(self, obj):
        for f in self.files:
            f.write(obj)
            f.flush()

    def flush(self):
        for f in self.files:
            f.flush()


def trace_query(matcher, scorer, sessions, session_id, raw_query, location):
    print(f"\n{'='*60}", flush=True)
    print(f"QUERY: {raw_query}  LOCATION: {location}", flush=True)
    print(f"{'='*60}", flush=True)

    # 1. Normalization
    query = normalize(raw_query)
    print(f"\n--- [Phase 1] Normalizer ---", flush=True)
    print(f"Normalized: '{query}' (edit budget {matcher.edit_budget(query)})", flush=True)

    # 2. Session
    print("\n--- [Phase 2] Session Cache ---", flush=True)
    context = (round(location[0], 3), round(location[1], 3)) if location else None
    cached = sessions.lookup(session_id, query, context)
    if cached.unchanged:
        print(f"Unchanged query -> 304 (fingerprint {cached.fingerprint})", flush=True)
        return
    if cached.pool is not None:
        print(f"Narrowed pool: {len(cached.pool)} places", flush=True)
    else:
        print(f"Full index: {len(matcher.index)} places", flush=True)

    # 3. Recall
    print("\n--- [Phase 3] Matcher ---", flush=True)
    candidates = matcher.match(query, cached.pool)
    if not candidates and cached.pool is not None:
        candidates = matcher.match(query)
    print(f"Total Candidates: {len(candidates)}", flush=True)
    for i, c in enumerate(sorted(candidates, key=lambda c: -c.similarity)[:10]):
        print(
            f"[{i+1}] ID: {c.place.id} | {c.place.display_name} (Similarity: {c.similarity:.4f})",
            flush=True,
        )
    if not candidates:
        print("No match -> 404", flush=True)
        return

    # 4. Ranking
    print(f"\n--- [Phase 4] Scorer (Top {scorer.top_k}) ---", flush=True)
    ranked = scorer.rank(candidates, location)
    for i, s in enumerate(ranked[: scorer.top_k]):
        print(f"#{i+1} ID: {s.place.id} | {s.place.display_name}", flush=True)
        print(
            f"    Score: {s.score:.4f} (Proximity: {scorer.proximity(s.place, location):.4f}, Pop: {s.place.population})",
            flush=True,
        )

    digest = fingerprint(scorer.top(ranked))
    sessions.store(session_id, query, ranked, digest, context)
    print(f"Fingerprint: {digest}", flush=True)


def main():
    parser = argparse.ArgumentParser(description="Trace the suggestion pipeline")
    parser.add_argument("queries", nargs="*", default=["mont", "montr", "montr", "Nonreal"])
    parser.add_argument("--lat", type=float, default=None)
    parser.add_argument("--lon", type=float, default=None)
    parser.add_argument("--places", default=settings.PLACES_PATH)
    args = parser.parse_args()

    logging.basicConfig(level=settings.LOG_LEVEL)
    os.makedirs(settings.LOG_DIR, exist_ok=True)
    log_file = open(settings.TRACE_LOG_PATH, "a", encoding="utf-8")
    sys.stdout = Tee(sys.stdout, log_file)

    index = load_place_index(args.places)
    matcher = Matcher(index)
    scorer = Scorer()
    sessions = SessionCache()

    location = None
    if args.lat is not None and args.lon is not None:
        location = LatLong(args.lat, args.lon)

    # All queries share one session, like successive keystrokes
    for raw_query in args.queries:
        trace_query(matcher, scorer, sessions, "trace", raw_query, location)


if __name__ == "__main__":
    main()
