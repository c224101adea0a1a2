# examples/01_layer_budget.py
"""
Layer budget walkthrough.

Defines a few tool layers, activates them under a small budget and shows
eviction, exclusivity handling and recommendations.
"""

import asyncio
import logging

from chuk_context_budget import (
    ContextScheduler,
    Layer,
    NotificationKind,
    SchedulerConfig,
)


def print_event(notification):
    print(f"  [{notification.kind.value}] {notification.data}")


async def main():
    logging.basicConfig(level=logging.INFO)

    scheduler = ContextScheduler(SchedulerConfig(max_weight=1000, min_retention_time=0, strategy="lru"))
    scheduler.subscribe(NotificationKind.PRESSURE_CHANGED, print_event)
    scheduler.subscribe(NotificationKind.LAYER_DEACTIVATED, print_event)

    await scheduler.define_layer(Layer(id="core", weight=200, required=True, load_by_default=True, tools={"read_file"}))
    await scheduler.define_layer(
        Layer(
            id="video",
            name="Video Production",
            weight=450,
            dependencies={"core"},
            keywords={"video", "render"},
            tools={"render_video", "trim_clip"},
        )
    )
    await scheduler.define_layer(Layer(id="slides", weight=300, dependencies={"core"}, exclusive_with={"video"}))

    print("Activating defaults...")
    await scheduler.activate_defaults()

    print("\nRecommendations for 'render a product video':")
    for rec in scheduler.get_recommendations("render a product video"):
        print(f"  {rec.layer_id}: {rec.confidence:.2f} ({rec.reason})")

    await scheduler.add_item("web_search", weight=250)
    result = await scheduler.activate_layers(["video"])
    print(f"\nvideo activated={result.activated} evicted={result.evicted} weight={result.new_weight:g}")

    result = await scheduler.activate_layers(["slides"])
    print(f"slides without auto-deactivate: success={result.success} error={result.error}")

    result = await scheduler.activate_layers(["slides"], allow_auto_deactivate=True)
    print(f"slides with auto-deactivate: deactivated={result.deactivated} activated={result.activated}")

    stats = scheduler.get_statistics()
    print(f"\nWeight {stats.total_weight:g}/{stats.max_weight:g} ({stats.pressure.label})")
    for entry in scheduler.get_history():
        print(f"  #{entry.sequence} {entry.action.value} {list(entry.requested)} success={entry.success}")


if __name__ == "__main__":
    asyncio.run(main())
