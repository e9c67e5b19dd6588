#!/usr/bin/env python3
"""Estimate daily Google Business Profile API calls and recommend a quota."""
import argparse
import math
import sys

REVIEWS_PER_PAGE = 50  # Google's max page size for reviews.list
METRICS_EVERY_DAYS = 7
BUSINESS_INFO_UPDATE_RATE = 0.1
BUFFER = 1.3
DEFAULT_DAILY_QUOTA = 10000
GROWTH_RATES = (1.5, 2, 3, 5)


def estimate(
    clients: int,
    locations_per_client: int = 1,
    syncs_per_day: int = 1,
    reviews_per_location: int = 50,
    replies_per_day: int = 10,
    fetch_metrics: bool = False,
) -> dict:
    """Daily call breakdown. Each reply costs two calls (post + verification read)."""
    locations = clients * locations_per_client
    pages = max(1, math.ceil(reviews_per_location / REVIEWS_PER_PAGE))
    review_listing = locations * syncs_per_day * pages
    replies = replies_per_day * 2
    metrics = locations * (30 / METRICS_EVERY_DAYS) if fetch_metrics else 0
    business_info = locations * BUSINESS_INFO_UPDATE_RATE
    total = review_listing + replies + metrics + business_info
    recommended = math.ceil(total * BUFFER)
    return {
        "locations": locations,
        "pages_per_location": pages,
        "review_listing": review_listing,
        "replies": replies,
        "metrics": metrics,
        "business_info": business_info,
        "total": total,
        "recommended": recommended,
        "utilization_percent": round(recommended / DEFAULT_DAILY_QUOTA * 100),
    }


def recommendation(recommended: int, default_quota: int = DEFAULT_DAILY_QUOTA) -> str:
    if recommended <= default_quota * 0.7:
        return "sufficient"
    if recommended <= default_quota:
        return "approaching"
    return "increase"


def print_report(result: dict, syncs_per_day: int, clients: int) -> None:
    line = "-" * 60
    print("QUOTA CALCULATION BREAKDOWN")
    print(line)
    print(f"Clients:              {clients}")
    print(f"Total Locations:      {result['locations']}")
    print(f"Syncs per Day:        {syncs_per_day}")
    print(f"Avg Pages/Location:   {result['pages_per_location']}")
    print()
    print("API CALL BREAKDOWN:")
    print(f"  Review Listing:     {result['review_listing']:,} calls/day")
    print(f"  Review Replies:     {result['replies']:,} calls/day")
    print(f"  Performance:        {round(result['metrics']):,} calls/day")
    print(f"  Business Info:      {round(result['business_info']):,} calls/day")
    print(line)
    print(f"TOTAL (base):         {round(result['total']):,} calls/day")
    print(f"RECOMMENDED (30% buffer): {result['recommended']:,} calls/day")
    print(line)

    verdict = recommendation(result["recommended"])
    pct = result["utilization_percent"]
    if verdict == "sufficient":
        print(f"Default quota is sufficient (~{pct}% of {DEFAULT_DAILY_QUOTA:,}/day).")
    elif verdict == "approaching":
        print(f"Approaching the default quota (~{pct}% of {DEFAULT_DAILY_QUOTA:,}/day).")
        print("Consider reducing sync frequency or fetching only new reviews.")
    else:
        request = math.ceil(result["recommended"] / 1000) * 1000
        print(f"Quota increase required: request {request:,} calls/day.")

    print("\nGROWTH PROJECTIONS:")
    for rate in GROWTH_RATES:
        future = math.ceil(result["recommended"] * rate)
        flag = "quota increase needed" if future > DEFAULT_DAILY_QUOTA else "ok"
        print(f"  {rate}x growth -> {future:,} calls/day ({flag})")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--clients", type=int, required=True, help="Number of clients (current or planned)")
    parser.add_argument("--locations", type=int, default=1, help="Average locations per client")
    parser.add_argument("--syncs-per-day", type=int, default=1, help="Review syncs per day (4 = every 6 hours)")
    parser.add_argument("--reviews", type=int, default=50, help="Average reviews per location")
    parser.add_argument("--replies", type=int, default=10, help="Average review replies per day")
    parser.add_argument("--metrics", action="store_true", help="Include weekly performance metrics fetches")
    args = parser.parse_args(argv)

    if min(args.clients, args.locations, args.syncs_per_day, args.reviews, args.replies) < 0:
        parser.error("all counts must be non-negative")

    result = estimate(
        args.clients,
        locations_per_client=args.locations,
        syncs_per_day=args.syncs_per_day,
        reviews_per_location=args.reviews,
        replies_per_day=args.replies,
        fetch_metrics=args.metrics,
    )
    print_report(result, args.syncs_per_day, args.clients)
    return 0


if __name__ == "__main__":
    sys.exit(main())
