import discord
import pendulum

from typing import *

from ..analytics.dashboard import CWLDashboard
from ..analytics.mvp import RoundAwards
from ..analytics.predictions import PositionPrediction
from ..analytics.roster import AttackTiming, LineupRecommendation, RosterAlerts
from ..constants import CWLColors, WarResult, WarState, CWL_ROUNDS
from ..objects.performance import PlayerRoundPerformance, PlayerSeasonStats
from ..objects.standings import RoundStanding
from ..objects.war import CWLWar
from ..utils.utils import chunks, format_tag

FOOTER = "Clan War League"

####################################################################################################
#####
##### MESSAGING SURFACE
#####
####################################################################################################
class Messenger():
    """
    Outbound messaging surface. Implementations send or edit a message in a channel and return its id.
    """
    async def send(self,channel_id:int,embed:discord.Embed,content:Optional[str]=None) -> Optional[int]:
        raise NotImplementedError

    async def edit(self,channel_id:int,message_id:int,embed:discord.Embed,content:Optional[str]=None) -> Optional[int]:
        raise NotImplementedError

def build_mention_prefix(targets:Iterable[str]) -> Optional[str]:
    """
    Resolves configured mention targets into a message prefix.

    `everyone` and `here` map to their pings. Raw mentions (`<@...>`) pass
    through, `user:ID` becomes a user mention and anything else is treated as a
    role ID.
    """
    mentions = []
    for target in targets or []:
        t = str(target).strip()
        if not t:
            continue
        if t.lower() in ['everyone','@everyone']:
            mention = '@everyone'
        elif t.lower() in ['here','@here']:
            mention = '@here'
        elif t.startswith('<@'):
            mention = t
        elif t.lower().startswith('user:'):
            mention = f"<@{t.split(':',1)[1]}>"
        elif t.lower().startswith('role:'):
            mention = f"<@&{t.split(':',1)[1]}>"
        else:
            mention = f"<@&{t}>"
        if mention not in mentions:
            mentions.append(mention)
    return ' '.join(mentions) if mentions else None

####################################################################################################
#####
##### EMBEDS
#####
####################################################################################################
def cwl_embed(
    title:str,
    message:Optional[str]=None,
    color:int=CWLColors.BLUE,
    footer:Optional[str]=None,
    timestamp:Optional[pendulum.DateTime]=None) -> discord.Embed:

    embed = discord.Embed(
        title=title,
        description=f"{message if message else ''}",
        color=discord.Colour(color)
        )
    if timestamp:
        embed.timestamp = timestamp
    embed.set_footer(text=footer or FOOTER)
    return embed

def _league_season(league_group:Optional[dict]) -> str:
    return (league_group or {}).get('season') or 'Unknown'

def cwl_started_embed(clan_name:str,clan_tag:str,league_group:dict) -> discord.Embed:
    embed = cwl_embed(
        title="🏆 CWL Started!",
        message=f"**{clan_name}** has entered Clan War League!",
        color=CWLColors.GOLD,
        timestamp=pendulum.now('UTC')
        )
    embed.add_field(name="Clan",value=f"{clan_name} ({format_tag(clan_tag)})",inline=True)
    embed.add_field(name="Season",value=_league_season(league_group),inline=True)
    embed.add_field(name="Clans",value=f"{len(league_group.get('clans',[]) or [])}",inline=True)
    embed.add_field(name="Rounds",value=f"{len(league_group.get('rounds',[]) or [])}",inline=True)
    return embed

def wars_started_embed(clan_name:str,clan_tag:str,league_group:dict) -> discord.Embed:
    embed = cwl_embed(
        title="⚔️ CWL Wars Started!",
        message=f"**{clan_name}** CWL wars are now active!",
        color=CWLColors.ORANGE,
        timestamp=pendulum.now('UTC')
        )
    embed.add_field(name="Clan",value=f"{clan_name} ({format_tag(clan_tag)})",inline=True)
    embed.add_field(name="Season",value=_league_season(league_group),inline=True)
    return embed

def cwl_ended_embed(clan_name:str,clan_tag:str,season_label:str,history:List[RoundStanding]) -> discord.Embed:
    embed = cwl_embed(
        title="🏁 CWL Ended",
        message=f"**{clan_name}** ({format_tag(clan_tag)}) has finished Clan War League.",
        color=CWLColors.GOLD,
        footer=f"CWL {season_label}",
        timestamp=pendulum.now('UTC')
        )
    if len(history) == 0:
        embed.add_field(name="Final Standings",value="No rounds were recorded this season.",inline=False)
        return embed

    final = history[-1]
    embed.add_field(name="Final Position",value=f"**{final.position}** / {final.total_clans}",inline=True)
    embed.add_field(name="Record",value=f"{final.cumulative_wins}W - {final.cumulative_losses}L",inline=True)
    embed.add_field(name="League",value=f"{final.league_name or 'Unknown'}",inline=True)
    embed.add_field(
        name="Rounds",
        value='\n'.join([f"R{s.round_number}: #{s.position} · {s.stars_earned}⭐ · {s.destruction_percentage:.1f}% · {WarResult.readable_text(s.result)}" for s in history]),
        inline=False
        )
    return embed

def _result_color(result:str) -> int:
    if result == WarResult.WON:
        return CWLColors.GREEN
    if result == WarResult.LOST:
        return CWLColors.RED
    return CWLColors.YELLOW

def round_embed(
    war:CWLWar,
    round_number:int,
    season_label:str,
    rows:Optional[List[PlayerRoundPerformance]]=None,
    cumulative:Optional[Dict[str,PlayerSeasonStats]]=None) -> discord.Embed:
    """
    Round update while the war is on, round result once it has ended.
    """
    description = f"**{war.clan.name}** vs **{war.opponent.name}**"
    if war.is_ended:
        footer = f"CWL {season_label} • War Ended"
        if war.end_time:
            footer += f" • {war.end_time.format('MMM D HH:mm')}"
        embed = cwl_embed(
            title=f"🏆 CWL Round {round_number} Result",
            message=description,
            color=_result_color(war.result),
            footer=footer
            )
    else:
        now = pendulum.now('UTC')
        embed = cwl_embed(
            title=f"🏆 CWL Round {round_number} Update",
            message=f"{description}\n\n🕐 Last Updated: <t:{now.int_timestamp}:R>",
            color=CWLColors.YELLOW,
            footer=f"CWL {season_label}",
            timestamp=now
            )

    embed.add_field(name="Round",value=f"{round_number}",inline=True)
    status = WarResult.readable_text(war.result) if war.is_ended else f"{WarState.readable_text(war.state)} ({WarResult.readable_text(war.current_result)})"
    embed.add_field(name="Status",value=status,inline=True)
    embed.add_field(name="Attacks",value=f"{war.clan.attacks_used} / {war.team_size or len(war.clan.members)}",inline=True)
    embed.add_field(name="Our Stars",value=f"{war.clan.stars}⭐",inline=True)
    embed.add_field(name="Enemy Stars",value=f"{war.opponent.stars}⭐",inline=True)
    embed.add_field(name="​",value="​",inline=True)
    embed.add_field(name="Our Destruction",value=f"{war.clan.destruction:.1f}%",inline=True)
    embed.add_field(name="Enemy Destruction",value=f"{war.opponent.destruction:.1f}%",inline=True)
    embed.add_field(name="​",value="​",inline=True)

    if rows:
        lines = []
        for r in rows:
            line = f"`{r.map_position or '-':>2}` TH{r.townhall_level or '?'} {r.player_name}: "
            if r.attacks_used > 0:
                line += f"{r.stars_earned}⭐ {r.destruction_percentage:.0f}%"
                if r.target_position:
                    line += f" → #{r.target_position}"
            else:
                line += "no attack"
            stats = (cumulative or {}).get(r.player_tag)
            if stats and stats.attacks > 0:
                line += f" (avg {stats.avg_stars:.2f})"
            lines.append(line)
        for i,chunk in enumerate(chunks(lines,10)):
            embed.add_field(name="Lineup" if i == 0 else "​",value='\n'.join(chunk)[:1024],inline=False)
    return embed

def leaderboard_embed(current:RoundStanding,history:List[RoundStanding],season_label:str) -> discord.Embed:
    trend = "➡️"
    if len(history) >= 2:
        previous = history[-2]
        if current.position < previous.position:
            trend = "📈"
        elif current.position > previous.position:
            trend = "📉"

    if current.position <= 3:
        color = CWLColors.GREEN
    elif current.position <= 5:
        color = CWLColors.YELLOW
    else:
        color = CWLColors.RED

    embed = cwl_embed(
        title=f"🏆 CWL Leaderboard - Round {current.round_number}",
        message=f"{current.league_name or 'Unknown'}",
        color=color,
        footer=f"Season {season_label} • Updated",
        timestamp=pendulum.now('UTC')
        )
    embed.add_field(name="Position",value=f"{trend} **{current.position}** / {current.total_clans}",inline=True)
    embed.add_field(name="Round Stars",value=f"⭐ {current.stars_earned}",inline=True)
    embed.add_field(name="Destruction",value=f"💥 {current.destruction_percentage:.2f}%",inline=True)
    embed.add_field(name="Record",value=f"{current.cumulative_wins}W - {current.cumulative_losses}L",inline=True)
    return embed

def prediction_embed(prediction:PositionPrediction,season_label:str) -> discord.Embed:
    confidence_emoji = {
        'high': '🟢',
        'medium': '🟡',
        'low': '🟠'
        }
    if prediction.league_tier and prediction.league_tier.is_known and prediction.medals:
        bonus_text = '\n'.join([
            f"**Position {m.position}: {m.medals} medals**" if m.likelihood == 'most likely' else f"Position {m.position}: {m.medals} medals"
            for m in prediction.medals
            ])
    else:
        bonus_text = "League not recognized."

    embed = cwl_embed(
        title="🔮 CWL Predictions",
        message=f"{prediction.league_tier.value if prediction.league_tier else 'Unknown League'}",
        color=CWLColors.PURPLE,
        footer=f"Season {season_label} • Predictions update after each round",
        timestamp=pendulum.now('UTC')
        )
    embed.add_field(name="Predicted Position",value=f"**{prediction.predicted_position}** ({prediction.outlook})",inline=True)
    embed.add_field(name="Confidence",value=f"{confidence_emoji.get(prediction.confidence,'🔴')} {prediction.confidence}",inline=True)
    embed.add_field(name="Rounds Remaining",value=f"{prediction.rounds_remaining}/{CWL_ROUNDS}",inline=True)
    embed.add_field(name="Predicted Total Stars",value=f"⭐ {prediction.predicted_total_stars}",inline=True)
    embed.add_field(name="Avg Stars/Round",value=f"{prediction.avg_stars_per_round}",inline=True)
    embed.add_field(name="Possible Medal Bonuses",value=bonus_text,inline=False)
    return embed

def round_mvp_embed(awards:RoundAwards,season_label:str) -> Optional[discord.Embed]:
    if awards.is_empty:
        return None
    embed = cwl_embed(
        title=f"🌟 Round {awards.round_number} MVP",
        message=f"**{awards.mvp.player_name}** · {awards.mvp.stars_earned}⭐ · {awards.mvp.destruction_percentage:.1f}%",
        color=CWLColors.GOLD,
        footer=f"CWL {season_label}"
        )
    embed.add_field(name="⭐ Most Stars",value=f"{awards.most_stars.player_name} ({awards.most_stars.stars_earned}⭐)",inline=True)
    embed.add_field(name="💥 Best Destruction",value=f"{awards.best_destruction.player_name} ({awards.best_destruction.destruction_percentage:.1f}%)",inline=True)
    if awards.three_star_master:
        tsm = awards.three_star_master
        embed.add_field(name="🎯 Three-Star Master",value=f"{tsm.player_name} ({awards.three_star_count} perfect attack{'s' if awards.three_star_count != 1 else ''})",inline=True)
    else:
        embed.add_field(name="🎯 Three-Star Master",value="No three-star attacks.",inline=True)
    return embed

def season_mvp_embed(ranking:List[PlayerSeasonStats],season_label:str) -> Optional[discord.Embed]:
    if len(ranking) == 0:
        return None
    medals = ['🥇','🥈','🥉','4.','5.']
    embed = cwl_embed(
        title="👑 CWL Season MVP",
        message=f"**{ranking[0].name}** is the MVP of the season!",
        color=CWLColors.GOLD,
        footer=f"CWL {season_label} • Minimum 3 rounds"
        )
    embed.add_field(
        name="Top Performers",
        value='\n'.join([
            f"{medals[i]} **{s.name}**: {s.stars}⭐ · {s.avg_destruction:.1f}% · {s.three_stars} triples ({s.rounds} rounds)"
            for i,s in enumerate(ranking[:5])
            ]),
        inline=False
        )
    return embed

def dashboard_embed(dashboard:CWLDashboard,season_label:str) -> discord.Embed:
    if not dashboard.has_data:
        return cwl_embed(
            title="📊 CWL Statistics Dashboard",
            message=f"**Season {season_label}** - No data available yet.\n\nData will appear once players start attacking in CWL rounds.",
            color=0x95A5A6,
            timestamp=pendulum.now('UTC')
            )

    overview = dashboard.overview()
    efficiency = dashboard.attack_efficiency()
    participation = dashboard.participation()
    matchup = dashboard.matchup_analysis()
    trends = dashboard.trends()

    embed = cwl_embed(
        title="📊 CWL Statistics Dashboard",
        message=f"**Season {season_label}**",
        color=CWLColors.BLUE,
        footer=f"CWL {season_label} • Updated",
        timestamp=pendulum.now('UTC')
        )
    embed.add_field(
        name="Overview",
        value=(
            f"Players: **{overview['total_players']}** · Rounds: **{overview['rounds_completed']}**\n"
            f"Attacks: **{overview['total_attacks']}** · Missed: **{overview['missed_attacks']}**\n"
            f"Stars: **{overview['total_stars']}** ({overview['stars_per_attack']}/attack)\n"
            f"Avg Destruction: **{overview['avg_destruction']}%** · Triples: **{overview['three_stars']}**\n"
            f"Completion: **{overview['attack_completion_rate']}%**"
            ),
        inline=False
        )
    embed.add_field(
        name="Attack Efficiency",
        value=(
            f"3⭐ {efficiency['three_star_rate']}% · 2⭐ {efficiency['two_star_rate']}% · "
            f"1⭐ {efficiency['one_star_rate']}% · 0⭐ {efficiency['zero_star_rate']}%\n"
            f"Success Rate: **{efficiency['star_success_rate']}%**"
            ),
        inline=False
        )
    embed.add_field(
        name="Participation",
        value=(
            f"Active: **{participation['active_players']}** · "
            f"Perfect Attendance: **{participation['perfect_attendance']}** · "
            f"Missed Attacks: **{participation['players_with_missed']}**"
            ),
        inline=False
        )
    if matchup:
        embed.add_field(
            name="Matchups",
            value=(
                f"Position: **{matchup['current_position']}** / {matchup['total_clans']} "
                f"({matchup['position_change']:+d})\n"
                f"Record: {matchup['total_wins']}W - {matchup['total_losses']}L ({matchup['win_rate']}%)"
                ),
            inline=False
            )
    embed.add_field(name="Trend",value=f"{trends['trend'].replace('_',' ').title()}",inline=True)

    top = dashboard.top_performers(limit=3)
    if top:
        embed.add_field(
            name="Top Performers",
            value='\n'.join([f"**{p['name']}**: {p['stars']}⭐ · {p['avg_destruction']}%" for p in top]),
            inline=False
            )
    return embed

def reminder_embeds(
    missing:List[PlayerRoundPerformance],
    round_number:int,
    hours_remaining:float,
    clan_name:str,
    timing:Optional[AttackTiming]=None) -> List[discord.Embed]:
    """
    Reminder listing players yet to attack: 10 names per field, at most 15 fields.
    With `timing`, the high-priority attackers are called out in a closing field.
    """
    if len(missing) == 0:
        return []
    embed = cwl_embed(
        title=f"⏰ CWL Round {round_number} Attack Reminder",
        message=f"**{clan_name}**: {len(missing)} player(s) still need to attack.\nAbout **{max(hours_remaining,0):.1f}h** left in the war.",
        color=CWLColors.ORANGE,
        timestamp=pendulum.now('UTC')
        )
    names = [f"• {r.player_name}" + (f" (#{r.map_position})" if r.map_position else "") for r in missing]
    for i,chunk in enumerate(chunks(names,10)):
        if i >= 15:
            break
        embed.add_field(name="Yet to attack" if i == 0 else "​",value='\n'.join(chunk)[:1024],inline=True)
    if timing and timing.high_priority:
        lines = [f"• {p.player_name}: {p.avg_stars:.1f}⭐ · {p.avg_destruction:.0f}%" for p in timing.high_priority]
        embed.add_field(name="🔥 Priority attackers",value='\n'.join(lines)[:1024],inline=False)
    return [embed]

def roster_embed(lineup:LineupRecommendation,alerts:RosterAlerts,season_label:str) -> discord.Embed:
    embed = cwl_embed(
        title="📋 CWL Roster Report",
        message=f"**Evaluated:** {lineup.total_evaluated} · **Recommended:** {len(lineup.recommended)} · **Benched:** {len(lineup.benched)}",
        color=CWLColors.BLUE,
        footer=f"CWL {season_label}"
        )
    if lineup.recommended:
        lines = [f"{i}. **{p.stats.name}**: {p.stats.stars}⭐ · {p.stats.avg_destruction:.1f}% · Score {p.score:.0f}" for i,p in enumerate(lineup.recommended,start=1)]
        for i,chunk in enumerate(chunks(lines,10)):
            embed.add_field(name="Recommended" if i == 0 else "​",value='\n'.join(chunk)[:1024],inline=False)

    for label,bucket in [("🔴 Inactive",alerts.inactive),("🟠 Underperforming",alerts.underperforming),("🟡 Warnings",alerts.warnings)]:
        if bucket:
            embed.add_field(
                name=label,
                value='\n'.join([f"**{a.stats.name}**: {'; '.join(a.issues) or 'Missed attacks'}" for a in bucket[:10]])[:1024],
                inline=False
                )
    return embed
