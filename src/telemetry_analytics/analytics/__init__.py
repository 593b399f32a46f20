"""Analytics components: climbs, power, cadence and trends."""
