import os
import csv
import json
import pendulum
import xlsxwriter

from typing import *

from .analytics.dashboard import CWLDashboard
from .analytics.mvp import season_mvp_ranking
from .analytics.predictions import predict_final_position
from .exceptions import InvalidExportFormat
from .objects.performance import CWLPerformanceRecorder
from .objects.standings import CWLLeaderboard
from .season import CWLSeason
from .utils.logs import LOG
from .utils.utils import clean_tag

EXPORT_FORMATS = {
    'performance': ['json','csv','xlsx'],
    'standings': ['json','csv','xlsx'],
    'season_report': ['json']
    }

performance_headers = [
    ('Round','round_number'),
    ('Tag','player_tag'),
    ('Name','player_name'),
    ('Townhall','townhall_level'),
    ('Map Position','map_position'),
    ('Attacks Used','attacks_used'),
    ('Attacks Remaining','attacks_remaining'),
    ('Stars','stars_earned'),
    ('Destruction','destruction_percentage'),
    ('Target','target_tag'),
    ('Target Townhall','target_townhall_level'),
    ('Target Position','target_position'),
    ('Three Star?','is_three_star'),
    ('War State','war_state')
    ]

standings_headers = [
    ('Round','round_number'),
    ('Position','position'),
    ('Total Clans','total_clans'),
    ('Stars','stars_earned'),
    ('Destruction','destruction_percentage'),
    ('Wins','cumulative_wins'),
    ('Losses','cumulative_losses'),
    ('League','league_name'),
    ('Source','source'),
    ('Result','result'),
    ('Finalized?','finalized')
    ]

class CWLDataExport():
    """
    Writes a campaign's persisted facts to a file in the export directory.

    | Type | Formats |
    | --- | --- |
    | performance | json, csv, xlsx |
    | standings | json, csv, xlsx |
    | season_report | json |
    """
    def __init__(self,recorder:CWLPerformanceRecorder,leaderboard:CWLLeaderboard,export_dir:str):
        self.recorder = recorder
        self.leaderboard = leaderboard
        self.export_dir = export_dir

    @staticmethod
    def validate(export_type:str,fmt:str):
        if fmt not in EXPORT_FORMATS.get(export_type,[]):
            raise InvalidExportFormat(export_type,fmt)

    @staticmethod
    def build_filename(export_type:str,clan_tag:str,season:CWLSeason,fmt:str,now:Optional[pendulum.DateTime]=None) -> str:
        now = now or pendulum.now('UTC')
        return f"cwl_{export_type}_{clean_tag(clan_tag)}_{season.id}_{now.format('YYYYMMDD_HHmmss')}.{fmt}"

    async def export(self,
        guild_id:int,
        clan_tag:str,
        season:CWLSeason,
        export_type:str,
        fmt:str,
        now:Optional[pendulum.DateTime]=None) -> Tuple[str,str]:

        self.validate(export_type,fmt)

        os.makedirs(self.export_dir,exist_ok=True)
        filename = self.build_filename(export_type,clan_tag,season,fmt,now)
        path = os.path.join(self.export_dir,filename)

        if export_type == 'season_report':
            report = await self.season_report(guild_id,clan_tag,season)
            self._write_json(path,report)

        else:
            if export_type == 'performance':
                rows = await self.recorder.get_season_performance(guild_id,clan_tag,season)
                headers = performance_headers
            else:
                rows = await self.leaderboard.get_standings_history(guild_id,clan_tag,season)
                headers = standings_headers
            records = [r.to_json() for r in rows]

            if fmt == 'json':
                self._write_json(path,records)
            elif fmt == 'csv':
                self._write_csv(path,headers,records)
            else:
                self._write_xlsx(path,export_type,headers,records)

        LOG.info(f"CWL {clean_tag(clan_tag)} ({guild_id}) {season.id}: exported {export_type} to {path}.")
        return filename, path

    async def season_report(self,guild_id:int,clan_tag:str,season:CWLSeason) -> dict:
        rows = await self.recorder.get_season_performance(guild_id,clan_tag,season)
        standings = await self.leaderboard.get_standings_history(guild_id,clan_tag,season)
        prediction = predict_final_position(standings)
        return {
            'guild_id': guild_id,
            'clan_tag': clean_tag(clan_tag),
            'season': season.id,
            'generated_at': pendulum.now('UTC').to_iso8601_string(),
            'standings': [s.to_json() for s in standings],
            'performance': [r.to_json() for r in rows],
            'season_mvp': [s.to_json() for s in season_mvp_ranking(rows)],
            'dashboard': CWLDashboard(rows,standings).to_json(),
            'prediction': prediction.to_json() if prediction else None
            }

    ##################################################
    ### WRITERS
    ##################################################
    @staticmethod
    def _write_json(path:str,data:Any):
        with open(path,'w',encoding='utf-8') as f:
            json.dump(data,f,indent=2,default=str)

    @staticmethod
    def _write_csv(path:str,headers:List[Tuple[str,str]],records:List[dict]):
        with open(path,'w',newline='',encoding='utf-8') as f:
            writer = csv.writer(f)
            writer.writerow([h[0] for h in headers])
            for record in records:
                writer.writerow([record.get(h[1],'') for h in headers])

    @staticmethod
    def _write_xlsx(path:str,sheet_name:str,headers:List[Tuple[str,str]],records:List[dict]):
        workbook = xlsxwriter.Workbook(path)
        bold = workbook.add_format({'bold':True})
        worksheet = workbook.add_worksheet(sheet_name.title())

        row = 0
        col = 0
        for header in headers:
            worksheet.write(row,col,header[0],bold)
            col += 1

        for record in records:
            col = 0
            row += 1
            for h in headers:
                value = record.get(h[1],None)
                if isinstance(value,bool):
                    value = 'Yes' if value else ''
                worksheet.write(row,col,value if value is not None else '')
                col += 1
        workbook.close()
