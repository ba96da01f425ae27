import os
import unittest
import tempfile
import numpy as np
import h5py
from numpy.testing import assert_array_equal
from numpy.testing import assert_almost_equal as assertAE
from pffrg.effectiveAction import EffectiveActionSU2,EffectiveActionXYZ,EffectiveActionTRI
from pffrg.vertexSU2 import Symmetry
from pffrg.exceptions import CheckpointIOError
from frgTestUtils import newContext,randomize

class testInitialConditions(unittest.TestCase):
    def test_su2(self):
        context,spinModel=newContext()
        action=EffectiveActionSU2.fromSpinModel(context,10.0,spinModel,4.0)
        self.assertEqual(action.cutoff,10.0)
        vertex=action.vertexTwoParticle
        for w in context.frequency.values:
            assertAE(vertex.value(0,1,w,w,w,Symmetry.SPIN),0.25)
            assertAE(vertex.value(0,0,w,w,w,Symmetry.SPIN),0.0)
            assertAE(vertex.value(0,1,w,w,w,Symmetry.DENSITY),0.0)
        assert_array_equal(action.vertexSingleParticle.data,np.zeros(3))

    def test_xyz(self):
        context,spinModel=newContext(modelName='dimer-xxz',modelOptions={'jxy':'1.0','jz':'2.0'})
        action=EffectiveActionXYZ.fromSpinModel(context,10.0,spinModel,4.0)
        data=action.vertexTwoParticle.data.reshape(18,4,2)
        assertAE(data[:,:,1],np.tile([0.25,0.25,0.5,0.0],(18,1)))
        assertAE(data[:,:,0],np.zeros((18,4)))

    def test_tri(self):
        context,spinModel=newContext(modelName='dimer-gamma',modelOptions={'j':'1.0','g':'0.5'})
        action=EffectiveActionTRI.fromSpinModel(context,10.0,spinModel,1.0)
        vertex=action.vertexTwoParticle
        data=vertex.data.reshape(18,16,2)
        assertAE(data[:,vertex.blockIndex[0*4+1],1],0.125)
        assertAE(data[:,vertex.blockIndex[2*4+2],1],0.25)
        assertAE(data[:,vertex.blockIndex[3*4+3],1],0.0)

class testCheckpoints(unittest.TestCase):
    def setUp(self):
        self.context,self.spinModel=newContext()
        self.tmp=tempfile.TemporaryDirectory()
        self.dataFile=os.path.join(self.tmp.name,'test.data')

    def tearDown(self):
        self.tmp.cleanup()

    def newAction(self,cutoff=5.0,seed=0):
        action=EffectiveActionSU2(self.context)
        action.cutoff=cutoff
        randomize(action.vertexSingleParticle.data,seed)
        randomize(action.vertexTwoParticle.dataSS,seed+1)
        randomize(action.vertexTwoParticle.dataDD,seed+2)
        return action

    def test_roundTrip(self):
        action=self.newAction()
        self.assertEqual(action.writeCheckpoint(self.dataFile),0)
        restored=EffectiveActionSU2(self.context)
        self.assertTrue(restored.readCheckpoint(self.dataFile,0))
        self.assertEqual(restored.cutoff,action.cutoff)
        assert_array_equal(restored.vertexSingleParticle.data,action.vertexSingleParticle.data)
        assert_array_equal(restored.vertexTwoParticle.dataSS,action.vertexTwoParticle.dataSS)
        assert_array_equal(restored.vertexTwoParticle.dataDD,action.vertexTwoParticle.dataDD)

    def test_fileLayout(self):
        self.newAction().writeCheckpoint(self.dataFile)
        with h5py.File(self.dataFile,'r') as hFile:
            group=hFile['checkpoint_0']
            assertAE(group.attrs['cutoff'],[5.0])
            self.assertEqual(set(group.keys()),{'cutoff','v2','v4ss','v4dd'})
            self.assertEqual(group['v4ss'].shape,(36,))

    def test_append(self):
        self.assertEqual(self.newAction(5.0).writeCheckpoint(self.dataFile,append=True),0)
        self.assertEqual(self.newAction(4.0).writeCheckpoint(self.dataFile,append=True),1)
        self.assertEqual(self.newAction(3.0,seed=5).writeCheckpoint(self.dataFile,append=True),2)
        restored=EffectiveActionSU2(self.context)
        self.assertTrue(restored.readCheckpoint(self.dataFile))
        self.assertEqual(restored.cutoff,3.0)
        assert_array_equal(restored.vertexTwoParticle.dataSS,self.newAction(3.0,seed=5).vertexTwoParticle.dataSS)
        self.assertTrue(restored.readCheckpoint(self.dataFile,1))
        self.assertEqual(restored.cutoff,4.0)
        self.assertFalse(restored.readCheckpoint(self.dataFile,3))

    def test_truncate(self):
        self.newAction(5.0).writeCheckpoint(self.dataFile)
        self.assertEqual(self.newAction(4.0).writeCheckpoint(self.dataFile),0)
        with h5py.File(self.dataFile,'r') as hFile:
            self.assertEqual(list(hFile.keys()),['checkpoint_0'])

    def test_skipExisting(self):
        self.newAction(5.0).writeCheckpoint(self.dataFile,append=True)
        with open(self.dataFile,'rb') as f:
            content=f.read()
        with self.assertLogs('pffrg.effectiveAction',level='WARNING'):
            self.assertEqual(self.newAction(5.0,seed=9).writeCheckpoint(self.dataFile,append=True),-1)
        self.assertEqual(os.path.getsize(self.dataFile),len(content))
        with open(self.dataFile,'rb') as f:
            self.assertEqual(f.read(),content)

    def test_missingFile(self):
        with self.assertRaises(CheckpointIOError):
            EffectiveActionSU2(self.context).readCheckpoint(os.path.join(self.tmp.name,'missing.data'))

    def test_dimensionMismatch(self):
        self.newAction().writeCheckpoint(self.dataFile)
        context,_=newContext(frequencies=[0.5,1.0,2.0,4.0])
        with self.assertRaises(CheckpointIOError):
            EffectiveActionSU2(context).readCheckpoint(self.dataFile)

    def test_blockCheckpoint(self):
        context,spinModel=newContext(modelName='dimer-gamma',modelOptions={'j':'1.0','g':'0.5'})
        action=EffectiveActionTRI.fromSpinModel(context,10.0,spinModel,1.0)
        randomize(action.vertexSingleParticle.data)
        self.assertEqual(action.writeCheckpoint(self.dataFile),0)
        restored=EffectiveActionTRI(context)
        self.assertTrue(restored.readCheckpoint(self.dataFile))
        assert_array_equal(restored.vertexTwoParticle.data,action.vertexTwoParticle.data)
        assert_array_equal(restored.vertexSingleParticle.data,action.vertexSingleParticle.data)

    def test_isDiverged(self):
        action=self.newAction()
        self.assertFalse(action.isDiverged())
        action.vertexTwoParticle.dataSS[3]=np.nan
        self.assertTrue(action.isDiverged())
        action=self.newAction()
        action.vertexSingleParticle.data[0]=np.nan
        self.assertTrue(action.isDiverged())

if __name__=='__main__':
    unittest.main()
