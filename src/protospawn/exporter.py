import json

from protospawn.core.ecs import World


def export_to_json(world: World) -> str:
    return json.dumps(
        {
            "gameobjects": {g.uid: g.to_dict() for g in world.get_gameobjects()},
        },
        default=str,
    )
